"""Discovery sources for AWS resources, served to a discovery engine over NATS."""

__version__ = "0.4.0"
