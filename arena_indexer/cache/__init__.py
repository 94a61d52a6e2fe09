"""Redis cache for read-model queries"""
