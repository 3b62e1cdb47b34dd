"""
paygate: reserved accounts and bank transfers over a payment processor.
"""

__version__ = "1.0.0"
