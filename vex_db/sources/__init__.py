"""
Feed sources. ``base`` holds the shared fetcher infrastructure and exception
hierarchy; each upstream feed lives in its own subpackage.
"""
