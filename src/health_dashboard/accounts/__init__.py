"""Account store access -- read-only table mappings, domain records, repository."""
