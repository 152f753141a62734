"""Rewrite requests, model backends and transform previews."""
