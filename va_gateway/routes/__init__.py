"""HTTP route handlers. Each takes (Request, GatewayContext) and returns an API Gateway response."""
