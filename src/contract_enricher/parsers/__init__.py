"""Parser modules for turning service replies into outcomes."""
