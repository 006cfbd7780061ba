"""HTTP client internals: request pipeline and the async executor."""
