"""HTTP surface for matching images against the ARTMATCH corpus."""
