"""Phrase lists used to tell transaction notifications apart from noise.

All entries are lowercase Spanish (Chilean bank mail) and are matched as
substrings of the lowercased subject + body.
"""

import re

INCOME_KEYWORDS = [
    "depósito", "deposito", "abono", "recibido", "transferencia recibida",
    "pago recibido", "ingreso", "nómina", "nomina", "sueldo",
]

EXPENSE_KEYWORDS = [
    "cargo", "compra", "pago", "retiro", "transferencia enviada",
    "débito", "debito", "cobro", "factura", "egreso", "giro",
    "cuota", "comisión", "comision", "mantención", "mantencion",
]

# At least one of these must be present for a strong accept.
TRANSACTION_REQUIRED_PHRASES = [
    # Transaction notifications
    "compra aprobada", "compra realizada", "cargo realizado", "pago exitoso",
    "transferencia exitosa", "transferencia realizada", "tef realizada",
    "abono realizado", "depósito realizado", "giro realizado",
    "cuota pagada", "pago de cuota", "débito automático",
    # Amounts in a transaction context
    "monto transferido", "monto de la compra", "monto de la transacción",
    # Typical bank wording for completed movements
    "has realizado una", "se ha realizado una", "hemos realizado",
    "desde tu cuenta corriente", "desde tu cuenta vista",
    # Receipts
    "comprobante de pago", "comprobante de transferencia",
    "voucher de compra", "recibo de pago",
    # Invoices
    "boleta electrónica", "factura electrónica",
    # Automatic debits
    "pac realizado", "débito realizado", "cargo automático realizado",
]

MARKETING_EXCLUSION_PHRASES = [
    # Promotions
    "promoción", "promocion", "oferta especial", "descuento exclusivo",
    "solo por hoy", "aprovecha", "no te pierdas", "beneficio exclusivo",
    "oportunidad", "exclusivo para ti", "te invitamos",
    # Newsletters
    "newsletter", "suscríbete", "suscribete", "boletin",
    # Surveys
    "encuesta", "evalúa", "califica tu experiencia", "tu opinión",
    # Account verification
    "actualiza tus datos", "verifica tu", "confirma tu correo",
    "bienvenido a", "gracias por registrarte", "activar cuenta",
    # Legal
    "términos y condiciones han cambiado", "política de privacidad",
    # Statements and summaries
    "estado de cuenta disponible", "tu cartola", "resumen mensual",
    "cartola trimestral", "cartola mensual", "resumen de cuenta",
    # Loyalty programs
    "pesos mi club", "mi club", "puntos acumulados", "canjea tus puntos",
    "beneficios cmr", "recuperar los beneficios", "acumular puntos",
    # Contests
    "gana entradas", "participa", "sorteo", "concurso", "últimos días para ganar",
    # Quotes
    "cotización", "cotizacion", "cotiza", "simula tu crédito",
    # Financial product offers
    "depósito a plazo", "deposito a plazo", "tasa anual", "nuevo producto",
    "te ofrecemos", "conoce nuestro", "descubre",
    # Charity campaigns
    "apoyemos", "donación", "donacion", "causa solidaria",
    # Retention
    "no pierdas esta oportunidad", "imaginas perder", "podrías perder",
    # Seasonal campaigns
    "empezó el verano", "este verano", "estas vacaciones",
    # Invitations
    "te invitamos a ser parte", "únete a", "forma parte de",
    # Gift promotions
    "mejor regalo para tu hijo", "regalo para tu hijo",
]

# Credit offers look like transactions (amounts, "aprobado") but are not.
CREDIT_OFFER_EXCLUSION_PHRASES = [
    "preaprobado", "pre aprobado", "pre-aprobado",
    "crédito preaprobado", "credito preaprobado",
    "crédito aprobado", "credito aprobado",
    "te aprobamos", "te preaprobamos",
    "línea de crédito", "linea de credito",
    "cupo aprobado", "avance aprobado",
    "simula tu crédito", "simula tu credito",
    "solicita tu crédito", "solicita tu credito",
    "oferta de crédito", "oferta de credito",
    "aprobación de crédito", "aprobacion de credito",
]

CREDIT_OFFER_EXCLUSION_PATTERNS = [
    re.compile(r"pre\s*-?\s*aprobado", re.IGNORECASE),
    re.compile(r"cr[eé]dito\s+aprobado", re.IGNORECASE),
    re.compile(r"aprobado\s+tu\s+cr[eé]dito", re.IGNORECASE),
    re.compile(r"te\s+aprobamos\s+un?\s+cr[eé]dito", re.IGNORECASE),
    re.compile(r"l[ií]nea\s+de\s+cr[eé]dito", re.IGNORECASE),
    re.compile(r"cupo\s+aprobado", re.IGNORECASE),
    re.compile(r"avance\s+aprobado", re.IGNORECASE),
]

MARKETING_SUBJECT_PATTERNS = [
    re.compile(r"^¡.*!$"),
    re.compile(r"últimos días", re.IGNORECASE),
    re.compile(r"no te lo pierdas", re.IGNORECASE),
    re.compile(r"especial para ti", re.IGNORECASE),
    re.compile(r"te esperamos", re.IGNORECASE),
    re.compile(r"mejor regalo para tu hijo", re.IGNORECASE),
    re.compile(r"regalo para tu hijo", re.IGNORECASE),
]

# Evidence of an actual movement, required by the keyword fallback.
TRANSACTION_ACTION_HINTS = [
    "realizad", "pagad", "compr", "carg", "debit", "abon",
    "transferencia recibida", "transferencia enviada", "transferencia realizada",
    "te han transferido", "has recibido", "giro realizado", "retiro",
]

DEFINITE_EXPENSE_PHRASES = [
    "pago de cuota", "pago cuota", "pago exitoso", "compra aprobada",
    "cargo realizado", "débito automático", "debito automatico",
    "transferencia realizada", "transferencia exitosa", "tef realizada",
    "pago tarjeta", "pago de tarjeta", "retiro", "giro realizado",
    "cobro realizado", "factura pagada", "mantención", "comisión",
]

DEFINITE_INCOME_PHRASES = [
    "depósito recibido", "deposito recibido", "abono recibido",
    "transferencia recibida", "pago recibido", "ingreso recibido",
    "te han transferido", "has recibido", "nómina", "nomina", "sueldo",
]

SERVICE_KEYWORDS = [
    "enel", "luz", "agua", "aguas andinas", "gas", "metrogas", "internet",
    "teléfono", "entel", "movistar", "claro", "wom", "vtr",
]

EMOJI_RE = re.compile(
    "[\U0001F300-\U0001F9FF☀-⛿✀-➿\U0001F600-\U0001F64F\U0001F680-\U0001F6FF]"
)
