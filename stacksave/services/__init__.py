"""Domain services for StackSave."""
