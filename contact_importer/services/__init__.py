"""Import pipeline services: mapping, validation, duplicates, bulk import, export."""
