"""Tree-level diffing of content repositories and path classification."""
