"""
Package identification helpers: RPM version comparison, container tag
versions, and Package URL conversions.
"""
