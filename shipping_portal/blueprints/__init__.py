"""HTTP blueprints for the shipping portal."""
