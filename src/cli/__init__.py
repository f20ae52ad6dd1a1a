"""Command-line interface for stack deployment."""
