"""
CRM Module
Task record models, target resolution and write-back for the CRM collaborator.
"""
