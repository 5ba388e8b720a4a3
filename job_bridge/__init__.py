"""
Job Bridge

An HTTP-to-RabbitMQ job dispatch bridge: a FastAPI producer publishes jobs
through a pool of AMQP channels, and a worker consumes them with
prefetch-bounded concurrency, acking on success and requeueing on failure.
"""

__version__ = "1.0.0"
