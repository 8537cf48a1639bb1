"""Developer tools for exercising xhrshim by hand."""
