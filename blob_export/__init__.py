"""
blob-export: Recurring transfer of exported blobs to a customer storage account.

This package lists recently modified blobs under an export prefix, copies them
server-side into a per-site container in the customer's account and publishes
an audit log of every run next to the copied data.
"""

__version__ = "0.1.0"
