"""api-validator: find input-validation gaps in OpenAPI-described APIs."""
__version__ = "0.1.0"
