"""The prism command-line interface."""
