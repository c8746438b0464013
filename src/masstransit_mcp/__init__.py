"""MCP server for RabbitMQ brokers used by MassTransit services."""

__version__ = "0.1.0"
