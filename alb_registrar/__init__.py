"""Register an EC2 instance with an ALB target group and drain it on shutdown."""

__version__ = "0.1.0"
