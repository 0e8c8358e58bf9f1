"""MCP server exposing vector store sync to AI agents over stdio."""
