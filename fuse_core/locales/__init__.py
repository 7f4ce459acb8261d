"""Message catalogs for fuse_core, one directory per locale."""
