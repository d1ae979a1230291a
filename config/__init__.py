"""
Configuration: YAML defaults, pydantic schema, .env loading.
"""
