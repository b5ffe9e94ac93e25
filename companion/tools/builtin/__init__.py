"""Built-in tools the model can call."""
