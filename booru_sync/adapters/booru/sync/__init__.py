"""Reconcile faves and upvotes between a source booru and its destinations."""
