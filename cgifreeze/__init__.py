"""
cgifreeze: Static Archiver for CGI-driven Community Sites

A utility for crawling legacy, query-parameter driven CGI sites (game
servers, bulletin boards) and freezing them into a self-contained static
file tree with every link and asset reference rewritten for offline browsing.
"""

__version__ = "1.0.0"
__author__ = "cgifreeze Project"
__description__ = "Static Archiver for CGI-driven Community Sites"
