"""
Purchase Order Converter
Reads uploaded order spreadsheets in any column layout, maps them onto the
standard purchase-order schema, renders the result as an .xlsx document and
emails it.
"""

__version__ = "0.1.0"
