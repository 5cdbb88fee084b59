from __future__ import annotations
import logging
import os
from handykonnect import create_app

def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    flask_app = create_app()

    # show what routes are actually mounted
    print("\n=== URL MAP ===")
    for r in sorted(flask_app.url_map.iter_rules(), key=lambda x: x.rule):
        print(r)
    print("===============\n")

    debug_enabled = os.environ.get("FLASK_DEBUG", "0") in {"1", "true", "True"}
    flask_app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=debug_enabled, threaded=True)

if __name__ == "__main__":
    main()
