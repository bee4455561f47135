"""
Services package for the Board API.

Contains the logic that composes repositories: post listing, batched
loaders and detail view assembly.
"""
