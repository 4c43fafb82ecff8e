"""Built-in data files shipped with the package."""
