"""
Official tax-office links.

When a free-text message mentions a known procedure, the matching links are
named in the fallback prompt and offered to the user as link buttons.
"""
from typing import TypedDict

from assistant.graph.intent import normalize_input
from assistant.menus import LINK


class OfficialLink(TypedDict):
    id: str
    keywords: tuple[str, ...]
    title: str
    description: str
    url: str
    category: str


LINKS: list[OfficialLink] = [
    {
        "id": "portal_mipyme",
        "keywords": ("free invoicing", "mipyme", "facturar gratis", "sistema gratuito"),
        "title": "MIPYME portal (free)",
        "description": "Main entry point for free invoicing with the tax office system.",
        "url": "https://www1.sii.cl/cgi-bin/portal/portal_mipyme.cgi",
        "category": "Invoicing",
    },
    {
        "id": "issue_invoice",
        "keywords": ("issue an invoice", "issue invoice", "electronic invoice", "emitir factura", "factura electronica"),
        "title": "Issue an electronic invoice",
        "description": "Invoice subject to VAT.",
        "url": "https://www1.sii.cl/cgi-bin/portal/portal_mipyme.cgi?OPCION=3",
        "category": "Invoicing",
    },
    {
        "id": "purchases_sales_register",
        "keywords": ("rcv", "purchases and sales", "accept invoice", "reject invoice", "registro compras ventas"),
        "title": "Purchases and sales register",
        "description": "Review every month; accept or reject received invoices.",
        "url": "https://www1.sii.cl/cgi-bin/portal/portal_mipyme.cgi?OPCION=RCV",
        "category": "Invoicing",
    },
    {
        "id": "fee_receipt",
        "keywords": ("fee receipt", "boleta honorarios", "emitir honorarios"),
        "title": "Issue a fee receipt",
        "description": "The worker signs in with their tax password and issues the receipt.",
        "url": "https://www.sii.cl/servicios_online/boletas_honorarios.html",
        "category": "Fees",
    },
    {
        "id": "pay_f29",
        "keywords": ("pay f29", "file f29", "form 29", "pay vat", "file vat", "pagar f29", "declarar iva"),
        "title": "File and pay F29",
        "description": "Monthly VAT form, usually due on the 20th.",
        "url": "https://www4.sii.cl/propuestaf29internet/",
        "category": "Monthly taxes",
    },
    {
        "id": "f29_status",
        "keywords": ("f29 status", "vat status", "consulta f29", "estado f29"),
        "title": "F29 status check",
        "description": "Check whether last month's payment went through.",
        "url": "https://www4.sii.cl/consf29internet/",
        "category": "Monthly taxes",
    },
    {
        "id": "income_tax_return",
        "keywords": ("income tax return", "annual income tax", "f22", "form 22", "declarar renta"),
        "title": "Annual income tax return (F22)",
        "description": "Yearly tax return, filed in April.",
        "url": "https://www.sii.cl/servicios_online/1044-.html",
        "category": "Income tax",
    },
    {
        "id": "recover_password",
        "keywords": ("forgot my password", "recover password", "tax password", "recuperar clave", "olvide clave"),
        "title": "Recover your tax password",
        "description": "If you forgot your tax office password.",
        "url": "https://www4.sii.cl/creaclaveinternet/recuperarClave.html",
        "category": "Procedures",
    },
    {
        "id": "tax_folder",
        "keywords": ("tax folder", "carpeta tributaria", "proof of income"),
        "title": "Tax folder",
        "description": "Document for banks or to prove income.",
        "url": "https://www.sii.cl/servicios_online/1047-1702.html",
        "category": "Certificates",
    },
    {
        "id": "start_of_activities",
        "keywords": ("start of activities", "inicio actividades", "formalize my business"),
        "title": "Start of activities",
        "description": "Sworn statement to open a business.",
        "url": "https://www.sii.cl/servicios_online/1031-.html",
        "category": "Procedures",
    },
    {
        "id": "close_business",
        "keywords": ("close my company", "close my business", "termino giro", "cerrar empresa"),
        "title": "Close the business",
        "description": "Notice to permanently close a company.",
        "url": "https://www.sii.cl/servicios_online/1036-1037.html",
        "category": "Procedures",
    },
]


def find_links(normalized: str) -> list[OfficialLink]:
    """Links whose keywords appear in the (already normalized) message, in table order."""
    return [
        link for link in LINKS
        if any(normalize_input(k) in normalized for k in link["keywords"])
    ]


def link_options(links: list[OfficialLink]) -> list[dict]:
    """Links as menu options, so they render and select like any other option."""
    return [
        {
            "id": link["id"],
            "label": link["title"],
            "icon": "🔗",
            "action": LINK,
            "params": {"url": link["url"]},
            "description": link["description"],
        }
        for link in links
    ]
