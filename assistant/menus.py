"""
Static menu registry.

Every screen the assistant can show lives in MENUS, keyed by its id. Option
order matters: it defines the numbers a user can type back ("1", "2", ...).
"""
import copy
from typing import Optional, TypedDict, Any

from assistant.graph.state import IDLE, TurnResult

# option actions
NAVIGATE = "navigate"
LINK = "link"
SHOW_MENU = "show_menu"
SHOW_TUTORIAL = "show_tutorial"
GET_DOCUMENT = "get_document"
CONTACT_SUPPORT = "contact_support"

ACTIONS = {NAVIGATE, LINK, SHOW_MENU, SHOW_TUTORIAL, GET_DOCUMENT, CONTACT_SUPPORT}

NAME_PLACEHOLDER = "[Name]"
DEFAULT_NAME = "there"

GUEST = "guest"
CLIENT = "client"


class MenuOption(TypedDict, total=False):
    id: str
    label: str
    action: str
    params: dict[str, Any]
    icon: str
    description: str


class MenuNode(TypedDict):
    id: str
    text: str
    options: list[MenuOption]


class UnknownMenuError(KeyError):
    def __init__(self, menu_id: str):
        super().__init__(menu_id)
        self.menu_id = menu_id


HELP_TEXTS: dict[str, str] = {
    "vat_return_step_by_step": (
        "**How to file the monthly VAT return (F29)**\n\n"
        "1. Sign in to the tax office portal.\n"
        "2. Open *Online services* > *Monthly taxes*.\n"
        "3. Choose *Monthly return (F29)* > *File VAT*.\n"
        "4. Log in with your tax id and password.\n"
        "5. Pick the month you are filing.\n"
        "6. Review the pre-filled proposal carefully.\n"
        "7. If it is correct, press *Submit return*.\n"
        "8. Save the filing certificate.\n\n"
        "*If you had no activity, file it as \"no movement\" to avoid fines.*"
    ),
    "vat_status_check": (
        "**Checking the status of your VAT return**\n\n"
        "1. Sign in to the tax office portal.\n"
        "2. Open *Monthly taxes* > *Check return status*.\n"
        "3. Select the period. Returns marked *observed* need attention."
    ),
    "start_of_activities": (
        "**Quick guide: registering the start of activities**\n\n"
        "1. Have your tax password ready.\n"
        "2. Open *Online services* > *Tax id and start of activities*.\n"
        "3. Select *Start of activities* and fill in your company and address details.\n"
        "4. Attach any documents requested and confirm.\n\n"
        "*We can do this for you and make sure you land in the right tax regime.*"
    ),
    "fee_receipt": (
        "**Issuing an electronic fee receipt**\n\n"
        "1. Open *Online services* > *Electronic fee receipts*.\n"
        "2. Choose *Issuer* > *Issue receipt*.\n"
        "3. Select who withholds the tax (usually the receiver).\n"
        "4. Fill in the client and service details, then confirm."
    ),
    "company_requirements": (
        "**What you need to create your company**\n\n"
        "- Identity document of every partner\n"
        "- Company name and line of business\n"
        "- Registered address\n"
        "- Initial capital and how it is split between partners"
    ),
}


MENUS: dict[str, MenuNode] = {
    # --- role: client ---
    "client_root": {
        "id": "client_root",
        "text": "Hi [Name], I'm Arise, your accounting assistant. I handle your taxes and documents. What do you need right now?",
        "options": [
            {"id": "taxes", "label": "📊 My taxes", "icon": "📊", "action": SHOW_MENU, "params": {"menu": "client_taxes"}, "description": "VAT, income tax, tax status"},
            {"id": "docs", "label": "📂 My documents", "icon": "📂", "action": SHOW_MENU, "params": {"menu": "client_docs"}, "description": "Folders, balance sheets, e-tax id"},
            {"id": "help", "label": "🎓 Tutorials and help", "icon": "🎓", "action": SHOW_MENU, "params": {"menu": "client_tutorials"}},
            {"id": "support", "label": "💬 Talk to an accountant", "icon": "🙋", "action": CONTACT_SUPPORT, "params": {}},
        ],
    },
    "client_taxes": {
        "id": "client_taxes",
        "text": "Which tax procedure do you want to review or carry out?",
        "options": [
            {"id": "vat_status", "label": "VAT return status", "icon": "📅", "action": SHOW_TUTORIAL, "params": {"id": "vat_status_check"}},
            {"id": "income_tax", "label": "Annual income tax", "icon": "💰", "action": CONTACT_SUPPORT, "params": {"topic": "income_tax"}},
            {"id": "back", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "client_root"}},
        ],
    },
    "client_docs": {
        "id": "client_docs",
        "text": "Opening your document vault. What do you need to download?",
        "options": [
            {"id": "get_folder", "label": "Tax folder", "icon": "📁", "action": GET_DOCUMENT, "params": {"type": "tax_folder"}},
            {"id": "get_vat", "label": "Latest VAT return", "icon": "📄", "action": GET_DOCUMENT, "params": {"type": "vat_return"}},
            {"id": "get_balance", "label": "Balance sheet", "icon": "📉", "action": GET_DOCUMENT, "params": {"type": "balance"}},
            {"id": "back", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "client_root"}},
        ],
    },
    "client_tutorials": {
        "id": "client_tutorials",
        "text": "Great idea! Knowing how to handle your own paperwork gives you control. Which guide do you want to see?",
        "options": [
            {"id": "guide_vat", "label": "📝 How to file VAT", "icon": "📝", "action": SHOW_TUTORIAL, "params": {"id": "vat_return_step_by_step"}},
            {"id": "guide_start", "label": "🚀 Start of activities", "icon": "🚀", "action": SHOW_TUTORIAL, "params": {"id": "start_of_activities"}},
            {"id": "guide_receipt", "label": "📄 Issue a fee receipt", "icon": "📄", "action": SHOW_TUTORIAL, "params": {"id": "fee_receipt"}},
            {"id": "back", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "client_root"}},
        ],
    },
    "client_contact": {
        "id": "client_contact",
        "text": "We are at Juan Martinez 616, Iquique. Opening hours: 9:00 - 18:00. Your accountant can also be reached on WhatsApp.",
        "options": [
            {"id": "whatsapp", "label": "WhatsApp", "icon": "💬", "action": LINK, "params": {"url": "https://wa.me/56912345678"}},
            {"id": "map", "label": "See map", "icon": "🗺️", "action": LINK, "params": {"url": "https://www.google.com/maps/search/?api=1&query=Juan+Martinez+616+Iquique"}},
            {"id": "back", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "client_root"}},
        ],
    },

    # --- role: guest ---
    "guest_root": {
        "id": "guest_root",
        "text": "Hello [Name]! 👋 Welcome. I'm Arise, your virtual assistant. How can I help you today?",
        "options": [
            {"id": "opt_quote", "label": "🚀 Get a quote / start a business", "action": SHOW_MENU, "params": {"menu": "guest_quote"}},
            {"id": "opt_guides", "label": "📚 Guides and tutorials", "action": SHOW_MENU, "params": {"menu": "guest_tutorials"}},
            {"id": "opt_contact", "label": "📍 Location and contact", "action": SHOW_MENU, "params": {"menu": "guest_contact"}},
            {"id": "opt_login", "label": "🔐 Sign in", "action": NAVIGATE, "params": {"path": "/login"}},
        ],
    },
    "guest_quote": {
        "id": "guest_quote",
        "text": "Excellent! We're ready to help you grow. Which service are you interested in?",
        "options": [
            {"id": "opt_new_company", "label": "🏢 Create my company", "action": SHOW_MENU, "params": {"menu": "guest_new_company"}},
            {"id": "opt_accounting", "label": "📈 Accounting services (existing company)", "action": SHOW_MENU, "params": {"menu": "guest_accounting"}},
            {"id": "opt_tax_advice", "label": "💡 Specific tax advice", "action": CONTACT_SUPPORT, "params": {"topic": "tax_advice"}},
            {"id": "back_root", "label": "⬅️ Back to start", "action": SHOW_MENU, "params": {"menu": "guest_root"}},
        ],
    },
    "guest_new_company": {
        "id": "guest_new_company",
        "text": "Starting a business is the way! We help with the whole process, from choosing the legal structure to registering your start of activities.",
        "options": [
            {"id": "opt_book_advice", "label": "📅 Book a free consultation", "action": LINK, "params": {"url": "https://calendly.com/arise-consulting/first-meeting"}},
            {"id": "opt_requirements", "label": "📄 See requirements", "action": SHOW_TUTORIAL, "params": {"id": "company_requirements"}},
            {"id": "back_quote", "label": "⬅️ Back", "action": SHOW_MENU, "params": {"menu": "guest_quote"}},
        ],
    },
    "guest_accounting": {
        "id": "guest_accounting",
        "text": (
            "Perfect. For established companies we offer full accounting plans:\n\n"
            "✅ Monthly VAT return\n✅ Annual income tax return\n"
            "✅ Payroll and labour advice\n✅ Representation before the tax office\n\n"
            "Are you looking to switch accountants or to get your situation in order?"
        ),
        "options": [
            {"id": "opt_monthly_plan", "label": "💰 Quote a monthly plan", "action": LINK, "params": {"url": "https://wa.me/56912345678?text=Hi,%20I%20want%20a%20quote%20for%20a%20monthly%20plan"}},
            {"id": "opt_regularize", "label": "⚠️ I need to sort out fines or blocks", "action": LINK, "params": {"url": "https://wa.me/56912345678?text=Hi,%20I%20have%20problems%20with%20the%20tax%20office"}},
            {"id": "back_quote", "label": "⬅️ Back", "action": SHOW_MENU, "params": {"menu": "guest_quote"}},
        ],
    },
    "guest_contact": {
        "id": "guest_contact",
        "text": "We are at Juan Martinez 616, Iquique. Opening hours: 9:00 - 18:00.",
        "options": [
            {"id": "whatsapp", "label": "WhatsApp", "icon": "💬", "action": LINK, "params": {"url": "https://wa.me/56912345678"}},
            {"id": "map", "label": "See map", "icon": "🗺️", "action": LINK, "params": {"url": "https://www.google.com/maps/search/?api=1&query=Juan+Martinez+616+Iquique"}},
            {"id": "back", "label": "🔙 Back", "action": SHOW_MENU, "params": {"menu": "guest_root"}},
        ],
    },
    "guest_tutorials": {
        "id": "guest_tutorials",
        "text": "Great idea! Knowing how to handle your own paperwork gives you control. Which guide do you want to see?",
        "options": [
            {"id": "guide_vat", "label": "📝 How to file VAT", "icon": "📝", "action": SHOW_TUTORIAL, "params": {"id": "vat_return_step_by_step"}},
            {"id": "guide_start", "label": "🚀 Start of activities", "icon": "🚀", "action": SHOW_TUTORIAL, "params": {"id": "start_of_activities"}},
            {"id": "guide_receipt", "label": "📄 Issue a fee receipt", "icon": "📄", "action": SHOW_TUTORIAL, "params": {"id": "fee_receipt"}},
            {"id": "back", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "guest_root"}},
        ],
    },
    "guest_guide": {
        "id": "guest_guide",
        "text": "I get it, it can be a lot of information. Let's go step by step. Which of these best describes what you're looking for?",
        "options": [
            {"id": "unsure_create", "label": "🏢 I want to set up my company", "description": "I have an idea and want to formalize it", "action": SHOW_MENU, "params": {"menu": "guest_new_company"}},
            {"id": "unsure_accounting", "label": "⚖️ I already have a company", "description": "Looking for an accountant or to change mine", "action": SHOW_MENU, "params": {"menu": "guest_accounting"}},
            {"id": "unsure_problems", "label": "🆘 I have problems with the tax office", "description": "Fines, blocks or pending returns", "action": LINK, "params": {"url": "https://wa.me/56912345678?text=Hi,%20I%20have%20urgent%20tax%20office%20problems"}},
            {"id": "unsure_browse", "label": "👀 Just looking", "description": "Tutorials or general information", "action": SHOW_MENU, "params": {"menu": "guest_tutorials"}},
            {"id": "back_root", "label": "🔙 Back to start", "action": SHOW_MENU, "params": {"menu": "guest_root"}},
        ],
    },
}

ROOT_MENUS = {CLIENT: "client_root", GUEST: "guest_root"}

# menu ids the generative fallback may suggest, per role
SUGGESTABLE_MENUS = {
    CLIENT: ["client_root", "client_docs", "client_taxes", "client_tutorials", "client_contact"],
    GUEST: ["guest_root", "guest_quote", "guest_tutorials", "guest_guide", "guest_contact"],
}


def root_menu_id(role: Any) -> str:
    if not isinstance(role, str):
        return ROOT_MENUS[GUEST]
    return ROOT_MENUS.get(role, ROOT_MENUS[GUEST])


def hub_menu_id(role: Optional[str]) -> str:
    # guided flows close on the role's start screen
    return root_menu_id(role)


def get_menu(menu_id: str) -> MenuNode:
    try:
        return MENUS[menu_id]
    except KeyError:
        raise UnknownMenuError(menu_id) from None


def safe_display_name(display_name: Any) -> str:
    if isinstance(display_name, str) and display_name.strip() and display_name.strip() != "undefined":
        return display_name.strip()
    return DEFAULT_NAME


def numbered_options(options: list[MenuOption]) -> list[dict]:
    """Display copy of `options` with "1. ", "2. " ... prefixed to each label."""
    return [
        {**copy.deepcopy(opt), "label_original": opt["label"], "label": f"{i}. {opt['label']}"}
        for i, opt in enumerate(options, start=1)
    ]


def render_menu(menu_id: str, display_name: Optional[str] = None) -> TurnResult:
    try:
        menu = get_menu(menu_id)
    except UnknownMenuError:
        return {
            "text": "Menu not found.",
            "menu_id": None,
            "options": None,
            "action": None,
            "next_state": {"mode": IDLE, "step": 0, "data": {}},
        }

    return {
        "text": menu["text"].replace(NAME_PLACEHOLDER, safe_display_name(display_name)),
        "menu_id": menu_id,
        "options": numbered_options(menu["options"]),
        "action": None,
        "next_state": {
            "mode": IDLE,
            "step": 0,
            "data": {},
            "lastMenuId": menu_id,
            "lastOptions": copy.deepcopy(menu["options"]),
        },
    }


def validate_menus(menus: Optional[dict[str, MenuNode]] = None) -> list[str]:
    """
    Referential integrity of the menu graph.
    Returns a list of problems; empty means every reference resolves.
    """
    menus = MENUS if menus is None else menus
    problems = []
    for key, menu in menus.items():
        if menu.get("id") != key:
            problems.append(f"{key}: id field is {menu.get('id')!r}")
        if menu["text"].count(NAME_PLACEHOLDER) > 1:
            problems.append(f"{key}: more than one name placeholder")
        for opt in menu["options"]:
            action = opt.get("action")
            params = opt.get("params") or {}
            if action not in ACTIONS:
                problems.append(f"{key}/{opt.get('id')}: unknown action {action!r}")
            elif action == SHOW_MENU and params.get("menu") not in menus:
                problems.append(f"{key}/{opt.get('id')}: submenu {params.get('menu')!r} does not exist")
            elif action == SHOW_TUTORIAL and params.get("id") not in HELP_TEXTS:
                problems.append(f"{key}/{opt.get('id')}: help text {params.get('id')!r} does not exist")
    for role, menu_id in ROOT_MENUS.items():
        if menu_id not in menus:
            problems.append(f"root menu for {role} ({menu_id}) does not exist")
    return problems
