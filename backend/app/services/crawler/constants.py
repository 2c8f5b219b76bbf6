"""Constants for the event crawler."""

# Tags dropped with their content before text extraction
STRIP_TAGS = ["script", "style", "nav", "footer", "noscript", "template", "svg"]

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
BOLD_TAGS = ["strong", "b"]
ITALIC_TAGS = ["em", "i"]

# Elements rendered on their own line
BLOCK_TAGS = [
    "div", "section", "article", "main", "header", "aside", "ul", "ol",
    "table", "tr", "blockquote", "pre", "form", "fieldset", "dl", "dt", "dd",
    "figure", "figcaption", "address", "details", "summary",
]

# URL parameters to strip during normalization
STRIP_PARAMS = [
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "gclid", "fbclid", "msclkid", "mc_cid", "mc_eid",
]

# Links never worth fetching as pages
SKIP_EXTENSIONS = [
    ".pdf", ".zip", ".gz", ".tar", ".rar", ".7z",
    ".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg", ".ico",
    ".mp3", ".mp4", ".mov", ".avi", ".webm",
    ".css", ".js", ".json", ".xml", ".woff", ".woff2", ".ttf",
    ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".dmg", ".exe",
]

# Shallow preview limits
PREVIEW_LINK_LIMIT = 20

MAX_TITLE_LENGTH = 500
