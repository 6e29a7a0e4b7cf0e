"""Foundation modules: errors, filesystem, directories, locking, state."""
