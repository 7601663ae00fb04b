# auto-reply message bodies. Placeholders are filled with str.format.

REPLY_TEMPLATES = {
    "referred_product": """Hi {contact_name}! Thanks for your interest in *{product_name}*.

Please share a few details so we can help you: {form_link}""",

    "order_form": """Thank you for your order!

To complete it for *{product_name}*, please fill in this form: {form_link}""",

    "order_flow": "Thank you for your order! Please complete the details for *{product_name}*.",

    "product_card": """*{product_name}*
{details}Price: {currency} {price}""",

    "product_price_line": "• {product_name}: {currency} {price}",

    "all_products_header": "Here are our products and prices:",

    "no_products": "We have no products available right now. Please check back soon!",

    "flow_invitation": "Please tap the button below to continue.",
}


def render_reply(template_name: str, **values) -> str:
    return REPLY_TEMPLATES[template_name].format(**values).strip()
