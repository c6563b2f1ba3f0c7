"""
vCenter Tag Taxonomy Backup & Restore

Export the tag categories and tags of a vCenter instance to a portable JSON
snapshot, and reconcile a snapshot against the live taxonomy of any vCenter.
"""

__version__ = "1.0.0"
__author__ = "Noah Farshad"
