"""Chat boundary: tier routing, action protocol and response streaming."""
