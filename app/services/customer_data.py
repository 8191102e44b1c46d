"""
Dados de pagador gerados quando a doação é anônima.
Acquirers reject charges without name, CPF, email and phone.
"""
import random
import re
import string
import unicodedata
from dataclasses import dataclass

RANDOM_NAMES = [
    "João Pedro Silva", "Carlos Eduardo Santos", "Rafael Henrique Oliveira",
    "Lucas Gabriel Costa", "Fernando Augusto Souza", "Marcos Vinicius Lima",
    "Bruno Felipe Alves", "Gustavo Henrique Rocha", "Diego Rodrigues Ferreira",
    "André Luis Gomes", "Thiago Martins Barbosa", "Ricardo Almeida Pereira",
    "Paulo Roberto Nascimento", "Matheus Henrique Carvalho", "Leonardo Silva Ribeiro",
    "Maria Eduarda Santos", "Ana Carolina Oliveira", "Juliana Cristina Costa",
    "Camila Fernanda Souza", "Beatriz Helena Lima", "Larissa Cristiane Alves",
    "Patricia Regina Rocha", "Fernanda Aparecida Ferreira", "Amanda Cristina Gomes",
    "Gabriela Santos Martins", "Mariana Silva Barbosa", "Carolina Almeida Pereira",
    "Isabela Nascimento Costa", "Leticia Carvalho Ribeiro", "Vanessa Lima Santos",
]

TXID_PREFIX = {"spedpay": "SPD", "inter": "INT", "ativus": "ATV"}
_TXID_ALPHABET = string.ascii_letters + string.digits

_rng = random.SystemRandom()


@dataclass(frozen=True)
class Customer:
    name: str
    cpf: str
    email: str
    phone: str

    @property
    def phone_digits(self) -> str:
        return re.sub(r"\D", "", self.phone)


def _strip_accents(text: str) -> str:
    nfd = unicodedata.normalize("NFD", text)
    return "".join(c for c in nfd if not unicodedata.combining(c))


def sanitize_name(name: str | None) -> str:
    """Remove acentos e tudo que não for letra ou espaço."""
    if not name:
        return ""
    cleaned = re.sub(r"[^a-zA-Z\s]", "", _strip_accents(name))
    return re.sub(r"\s+", " ", cleaned).strip()


def random_name() -> str:
    return _rng.choice(RANDOM_NAMES)


def _cpf_digit(digits: list[int]) -> int:
    weight = len(digits) + 1
    total = sum(d * (weight - i) for i, d in enumerate(digits))
    digit = 11 - (total % 11)
    return 0 if digit >= 10 else digit


def generate_cpf() -> str:
    while True:
        digits = [_rng.randint(0, 9) for _ in range(9)]
        digits.append(_cpf_digit(digits))
        digits.append(_cpf_digit(digits))
        if len(set(digits)) > 1:
            return "".join(str(d) for d in digits)


def is_valid_cpf(cpf: str) -> bool:
    if not re.fullmatch(r"\d{11}", cpf or "") or len(set(cpf)) == 1:
        return False
    digits = [int(c) for c in cpf]
    return _cpf_digit(digits[:9]) == digits[9] and _cpf_digit(digits[:10]) == digits[10]


def generate_email(name: str) -> str:
    local = _strip_accents(name.lower())
    local = re.sub(r"\s+", ".", local)
    local = re.sub(r"[^a-z.]", "", local)
    return f"{local}{_rng.randint(0, 999)}@email.com"


def generate_phone() -> str:
    ddd = _rng.randint(11, 99)
    part1 = _rng.randint(1000, 9999)
    part2 = _rng.randint(1000, 9999)
    return f"({ddd}) 9{part1}-{part2}"


def build_customer(donor_name: str | None) -> Customer:
    name = sanitize_name(donor_name) or sanitize_name(random_name())
    return Customer(
        name=name,
        cpf=generate_cpf(),
        email=generate_email(name),
        phone=generate_phone(),
    )


def generate_txid(acquirer: str) -> str:
    """Prefixo da adquirente + 23 alfanuméricos (26 chars, aceito pelo Inter)."""
    prefix = TXID_PREFIX.get(acquirer, "PIX")
    return prefix + "".join(_rng.choice(_TXID_ALPHABET) for _ in range(23))
