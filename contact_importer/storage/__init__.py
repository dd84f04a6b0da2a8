"""JSON file persistence for import history and the file-backed contact store."""
