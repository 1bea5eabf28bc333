"""golfrl - reinforcement learning for a simulated golf course"""

__version__ = "0.1.0"
