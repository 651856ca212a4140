"""
API request and response models.
"""
