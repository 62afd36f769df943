"""
Playwright selectors for the booking widget.

Классы у виджета генерируются и меняются от сборки к сборке, поэтому
селекторы опираются на видимый текст, aria-атрибуты и форму разметки.
"""

from __future__ import annotations

DAY_PARTS = ("Утро", "День", "Вечер")

# Элемент, чей собственный текст является номером дня (1-2 цифры)
DAY_CONTROL = (
    ':is(button, a, [role="button"], [role="tab"], li, div, span)'
    r':text-matches("^\s*\d{1,2}\s*$")'
)

# Номер дня, возможно с днём недели: "11", "11 пн"
DAY_SHAPED_TEXT = r':text-matches("^\s*\d{1,2}(\s+\S{1,3})?\s*$")'

# Какой день виджет сам считает выбранным
SELECTED_DAY = (
    '[aria-selected="true"], [aria-pressed="true"], [aria-current="date"], '
    '[aria-current="true"], '
    # "active"/"selected" в классе бывает у вкладок и обёрток, поэтому только для дней
    ':is(button, a, [role="button"], li, div, span):is([class*="selected" i], [class*="active" i])'
    + DAY_SHAPED_TEXT
)

SLOT_MARKERS = '[data-time], [class*="slot" i], [class*="time" i]'

LIST_POSITIONS = 'ul > li, ol > li, [role="listitem"], [role="gridcell"], [role="option"]'

TIME_SHAPED = r':is(button, a, span, div, p, li, label):text-matches("^\s*\d{1,2}:\d{2}\s*$")'

WIDTH_MARKED = '[style*="width"], [style*="flex-basis"]'

CAPTCHA_TOKENS = (
    "captcha",
    "cloudflare",
    "verify you are human",
    "подтвердите, что вы не робот",
    "checking your browser",
)


def _xpath_literal(text: str) -> str:
    if '"' not in text:
        return f'"{text}"'
    if "'" not in text:
        return f"'{text}'"
    parts = text.split('"')
    return "concat(" + ", '\"', ".join(f'"{part}"' for part in parts) + ")"


def deepest_with_text(text: str) -> str:
    """Innermost element whose normalized text contains ``text``."""
    lit = _xpath_literal(text)
    return (
        f"xpath=//body//*[contains(normalize-space(.), {lit}) "
        f"and not(*[contains(normalize-space(.), {lit})])]"
    )


def control_with_text(text: str) -> str:
    """Button or link whose text contains ``text``."""
    lit = _xpath_literal(text)
    return f'xpath=//*[self::button or self::a or @role="button"][contains(normalize-space(.), {lit})]'


def day_part_sections(parts: tuple[str, ...] = DAY_PARTS) -> str:
    """Section holding a day-part heading: the heading's direct parent only."""
    return f"{day_part_markers(parts)}/parent::*"


def day_part_markers(parts: tuple[str, ...] = DAY_PARTS) -> str:
    cond = " or ".join(f"normalize-space(.) = {_xpath_literal(p)}" for p in parts)
    return f"xpath=//body//*[{cond}]"


__all__ = [
    "DAY_PARTS",
    "DAY_CONTROL",
    "DAY_SHAPED_TEXT",
    "SELECTED_DAY",
    "SLOT_MARKERS",
    "LIST_POSITIONS",
    "TIME_SHAPED",
    "WIDTH_MARKED",
    "CAPTCHA_TOKENS",
    "deepest_with_text",
    "control_with_text",
    "day_part_sections",
    "day_part_markers",
]
