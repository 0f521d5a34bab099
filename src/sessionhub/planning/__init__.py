"""Complexity scoring and session splitting."""
