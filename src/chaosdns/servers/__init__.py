"""Wire-level glue and socket listeners."""
