"""Quality gate condition store, referential cleanup and data migrations."""
