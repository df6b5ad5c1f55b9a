"""Text generation, prompts, document assembly and rendering."""
