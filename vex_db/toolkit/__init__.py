"""
Format codecs used by the VEX synchronizer: CPE names, CVSS vectors, and CSAF
documents. None of these modules perform I/O.
"""
