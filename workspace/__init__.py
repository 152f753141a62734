"""Document workspace: file tree, active buffer, history and apply-time reconciliation."""
