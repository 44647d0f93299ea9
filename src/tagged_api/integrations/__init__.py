"""
Framework integrations for tagged_api.
"""
