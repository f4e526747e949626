"""
Task Messenger
Turns pending CRM tasks into outbound WhatsApp messages.
"""
__version__ = "0.1.0"
