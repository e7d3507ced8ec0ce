"""
Standard purchase-order schema: output columns, source-header candidates
for heuristic mapping, and validation reference data.
"""

from typing import Dict, List

# ---------------------------------------------------------------------------
# Target fields
# ---------------------------------------------------------------------------
SEQUENCE = "NO"
PRODUCT_NAME = "상품명"
QUANTITY = "수량"
UNIT_PRICE = "단가"
AMOUNT = "금액"
CUSTOMER_NAME = "고객명"
CONTACT = "연락처"
ADDRESS = "주소"

# Output column order; each label is also the header text written to the sheet
TARGET_COLUMNS: List[str] = [
    SEQUENCE,
    PRODUCT_NAME,
    QUANTITY,
    UNIT_PRICE,
    AMOUNT,
    CUSTOMER_NAME,
    CONTACT,
    ADDRESS,
]

# Fields a user (or the heuristic) can map; NO and 금액 are derived
MAPPABLE_FIELDS: List[str] = [
    PRODUCT_NAME,
    QUANTITY,
    UNIT_PRICE,
    CUSTOMER_NAME,
    CONTACT,
    ADDRESS,
]

NUMERIC_FIELDS = {QUANTITY, UNIT_PRICE, AMOUNT}

# ---------------------------------------------------------------------------
# Heuristic mapping: tried in order, exact and case-sensitive
# ---------------------------------------------------------------------------
DEFAULT_CANDIDATES: Dict[str, List[str]] = {
    PRODUCT_NAME: ["상품명", "품목명", "제품명", "product"],
    QUANTITY: ["수량", "주문수량", "quantity", "qty"],
    UNIT_PRICE: ["단가", "가격", "price", "unit_price"],
    CUSTOMER_NAME: ["고객명", "주문자", "배송받는분", "customer"],
    CONTACT: ["연락처", "전화번호", "phone", "tel"],
    ADDRESS: ["주소", "배송지", "address"],
}

# ---------------------------------------------------------------------------
# Validation reference data
# ---------------------------------------------------------------------------
REQUIRED_COLUMNS: List[str] = [PRODUCT_NAME, QUANTITY]
LOW_PRICE_THRESHOLD = 100
PHONE_PATTERN = r"^010-\d{4}-\d{4}$|^\d{2,3}-\d{3,4}-\d{4}$"

# ---------------------------------------------------------------------------
# Document layout
# ---------------------------------------------------------------------------
SHEET_TITLE = "발주서"
TOTAL_LABEL = "합계"
SEQUENCE_MARKERS = {"NO", "번호", "순번"}
MARKER_SCAN_ROWS = 10
MARKER_SCAN_COLS = 10
DEFAULT_DATA_START_ROW = 3
COLUMN_WIDTHS: List[int] = [5, 20, 8, 12, 12, 15, 15, 25]
HEADER_FILL_COLOR = "FFE0E0E0"
TOTAL_FILL_COLOR = "FFF0F0F0"
