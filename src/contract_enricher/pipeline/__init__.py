"""Pipeline modules for orchestrating the enrichment process."""
