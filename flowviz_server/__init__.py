"""HTTP and WebSocket service exposing flowviz sessions."""
