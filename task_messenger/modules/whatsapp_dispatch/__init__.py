"""
WhatsApp Dispatch Module
Template lookup, rendering and resilient delivery of CRM task messages.
"""
