"""Payment collaborator."""
