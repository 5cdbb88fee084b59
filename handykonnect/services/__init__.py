"""Lifecycle managers: each operation takes the acting profile explicitly."""
