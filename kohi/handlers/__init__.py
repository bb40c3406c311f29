"""Built-in command handlers, loaded by the CommandRegistry from this directory."""
