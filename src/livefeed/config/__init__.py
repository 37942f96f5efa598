"""
Loads channel configurations from layered YAML files.
"""
