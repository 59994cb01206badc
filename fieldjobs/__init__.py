"""fieldjobs - Job coordination backend for service providers and their customers"""
