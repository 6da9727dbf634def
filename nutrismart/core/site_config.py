"""Site Configuration - tenant branding schema, defaults and merge rules.

A tenant stores only the fields it overrides at tenants/{tenantId}/config/site.
The effective configuration is the hardcoded default with the override merged
field-by-field inside every nested section, validated as a whole.

All functions are pure: same input always produces same output, no side effects.
"""

import copy
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Optional, Union

from pydantic import AfterValidator, ConfigDict, Field, HttpUrl, TypeAdapter

from .models import DocumentModel


_HTTP_URL = TypeAdapter(HttpUrl)


def _check_url(value: str) -> str:
    # Validate without normalising so merged values compare equal to defaults.
    _HTTP_URL.validate_python(value)
    return value


def _check_url_or_empty(value: str) -> str:
    return value if value == "" else _check_url(value)


Url = Annotated[str, AfterValidator(_check_url)]
UrlOrEmpty = Annotated[str, AfterValidator(_check_url_or_empty)]


class PrimaryColor(str, Enum):
    VERDE_NUTRI = "Verde Nutri"
    AZUL_SERENO = "Azul Sereno"
    ROSA_VITAL = "Rosa Vital"
    LARANJA_ENERGIA = "Laranja Energia"
    ROXO_CRIATIVO = "Roxo Criativo"
    CIANO_FRESH = "Ciano Fresh"


class TitleFontSize(str, Enum):
    SMALL = "Pequeno"
    MEDIUM = "Médio"
    LARGE = "Grande"
    EXTRA_LARGE = "Extra Grande"


class LogoFont(str, Enum):
    POPPINS = "Poppins"
    LEXEND = "Lexend"
    MONTSERRAT = "Montserrat"
    LATO = "Lato"
    OSWALD = "Oswald"
    ROBOTO_SLAB = "Roboto Slab"
    PLAYFAIR_DISPLAY = "Playfair Display"
    MERRIWEATHER = "Merriweather"
    LOBSTER = "Lobster"
    PACIFICO = "Pacifico"
    DANCING_SCRIPT = "Dancing Script"
    CAVEAT = "Caveat"


class FeatureIcon(str, Enum):
    """Icons a feature card may use. Unknown names fail config validation."""

    BOOK_CHECK = "BookCheck"
    BRAIN_CIRCUIT = "BrainCircuit"
    CHEF_HAT = "ChefHat"
    USERS = "Users"
    APPLE = "Apple"
    SALAD = "Salad"
    DROPLET = "Droplet"
    HEART_PULSE = "HeartPulse"
    DUMBBELL = "Dumbbell"
    TARGET = "Target"
    CALENDAR = "Calendar"
    MESSAGE_SQUARE = "MessageSquare"


# HSL triplets for the primary colour and its contrasting foreground.
COLOR_HSL: dict[PrimaryColor, tuple[str, str]] = {
    PrimaryColor.VERDE_NUTRI: ("101 28% 54%", "101 28% 98%"),
    PrimaryColor.AZUL_SERENO: ("221 83% 53%", "221 83% 98%"),
    PrimaryColor.ROSA_VITAL: ("326 81% 61%", "326 81% 98%"),
    PrimaryColor.LARANJA_ENERGIA: ("26 95% 53%", "26 95% 98%"),
    PrimaryColor.ROXO_CRIATIVO: ("263 90% 67%", "263 90% 98%"),
    PrimaryColor.CIANO_FRESH: ("190 95% 43%", "190 95% 98%"),
}


# ==================== Schema ====================


class ConfigModel(DocumentModel):
    model_config = ConfigDict(frozen=True)


class ImageLogo(ConfigModel):
    type: Literal["image"]
    image_url: Url
    text: Optional[str] = None
    font: Optional[LogoFont] = None


class TextLogo(ConfigModel):
    type: Literal["text"]
    text: str = Field(min_length=1)
    font: LogoFont
    image_url: UrlOrEmpty = ""


Logo = Annotated[Union[ImageLogo, TextLogo], Field(discriminator="type")]


class Theme(ConfigModel):
    primary_color: PrimaryColor = PrimaryColor.VERDE_NUTRI
    title_font_size: TitleFontSize = TitleFontSize.MEDIUM


class HeroSection(ConfigModel):
    title: str
    subtitle: str
    cta: str
    image_url: Url


class Feature(ConfigModel):
    icon: FeatureIcon
    title: str
    description: str


class FeaturesSection(ConfigModel):
    title: str
    subtitle: str
    features: tuple[Feature, ...]


class ProfessionalProfileSection(ConfigModel):
    title: str
    about_me: str
    location: str
    hours: str
    image_url: UrlOrEmpty


class CtaSection(ConfigModel):
    title: str
    subtitle: str
    cta: str
    image_url: Url


class Testimonial(ConfigModel):
    name: str
    role: str
    quote: str
    image_url: Url
    image_hint: str


class TestimonialsSection(ConfigModel):
    title: str
    testimonials: tuple[Testimonial, ...]


class FinalCtaSection(ConfigModel):
    title: str
    subtitle: str
    cta: str


class SiteConfig(ConfigModel):
    """Fully populated branding/content for one tenant."""

    site_name: str
    logo: Logo
    theme: Theme
    hero_section: HeroSection
    features_section: FeaturesSection
    professional_profile_section: ProfessionalProfileSection
    cta_section: CtaSection
    testimonials_section: TestimonialsSection
    final_cta_section: FinalCtaSection


class HeroSettings(ConfigModel):
    title: str = Field(min_length=1)
    subtitle: str = Field(min_length=1)
    cta: str = Field(min_length=1)
    image_url: UrlOrEmpty


class SiteSettings(ConfigModel):
    """What a tenant admin may save. Stricter than SiteConfig on required text.

    Sections other than the logo, theme, hero and professional profile are
    optional here; they fall back to defaults when the config is resolved.
    """

    site_name: str = Field(min_length=1)
    logo: Logo
    theme: Theme
    hero_section: HeroSettings
    professional_profile_section: ProfessionalProfileSection
    features_section: Optional[FeaturesSection] = None
    cta_section: Optional[CtaSection] = None
    testimonials_section: Optional[TestimonialsSection] = None
    final_cta_section: Optional[FinalCtaSection] = None


# ==================== Defaults ====================


_DEFAULT_DOCUMENT: dict[str, Any] = {
    "siteName": "NutriSmart",
    "logo": {
        "type": "image",
        "imageUrl": "https://i.imgur.com/QHV8Oil.png",
        "text": "NutriSmart",
        "font": "Lexend",
    },
    "theme": {
        "primaryColor": "Verde Nutri",
        "titleFontSize": "Grande",
    },
    "heroSection": {
        "title": "O futuro da sua saúde, <span class='text-primary'>hoje</span>.",
        "subtitle": (
            "A plataforma inteligente que une o melhor da nutrição e tecnologia. "
            "Transforme sua jornada de bem-estar com planos alimentares, IA e "
            "acompanhamento em tempo real."
        ),
        "cta": "Começar minha Jornada",
        "imageUrl": "https://i.imgur.com/hyUEBmM.png",
    },
    "featuresSection": {
        "title": "Uma plataforma <span class='text-primary'>completa</span> para sua saúde",
        "subtitle": (
            "Do registro de refeições ao plano personalizado com IA, temos tudo o "
            "que você precisa para alcançar seus objetivos."
        ),
        "features": [
            {
                "icon": "BookCheck",
                "title": "Diário Inteligente",
                "description": "Registre suas refeições, água e histórico de consumo de forma simples e intuitiva.",
            },
            {
                "icon": "BrainCircuit",
                "title": "Análise com IA",
                "description": "Receba análises detalhadas e planos que se adaptam às suas metas e progresso.",
            },
            {
                "icon": "ChefHat",
                "title": "Chef Virtual",
                "description": "Descubra milhares de receitas com base nos ingredientes que você tem em casa.",
            },
            {
                "icon": "Users",
                "title": "Conexão Profissional",
                "description": "Compartilhe seus dados com seu nutricionista para um acompanhamento preciso e seguro.",
            },
        ],
    },
    "professionalProfileSection": {
        "title": "Conheça o seu Nutricionista",
        "aboutMe": (
            "Olá! Sou especialista em nutrição, com mais de 10 anos de experiência "
            "em transformar vidas através da alimentação. Vamos juntos nessa jornada?"
        ),
        "location": "São Paulo, SP (Atendimento Online)",
        "hours": "Seg - Sex, 9h às 18h",
        "imageUrl": "https://images.unsplash.com/photo-1576091160323-838b816a1b63?q=80&w=2070&auto=format&fit=crop",
    },
    "ctaSection": {
        "title": "Eleve seu atendimento a <span class='text-primary'>outro nível</span>.",
        "subtitle": (
            "Ofereça aos seus pacientes uma plataforma moderna para acompanhamento "
            "em tempo real, gestão de planos e comunicação direta."
        ),
        "cta": "Torne-se um Parceiro",
        "imageUrl": "https://images.unsplash.com/photo-1576091160550-2173dba999ef?q=80&w=2070&auto=format&fit=crop",
    },
    "testimonialsSection": {
        "title": "Resultados que falam por si",
        "testimonials": [
            {
                "name": "Juliana M.",
                "role": "Usuária Satisfeita",
                "quote": '"O NutriSmart mudou minha relação com a comida. Nunca foi tão fácil comer bem e atingir minhas metas de saúde."',
                "imageUrl": "https://images.unsplash.com/photo-1580489944761-15a19d654956?fit=max&fm=jpg&q=80&w=1080",
                "imageHint": "profile picture",
            },
            {
                "name": "Carlos S.",
                "role": "Atleta Amador",
                "quote": '"O app me ajuda a controlar meus macros com uma precisão incrível e o Chef Virtual é perfeito para o pós-treino."',
                "imageUrl": "https://images.unsplash.com/photo-1571019613454-1cb2f99b2d8b?q=80&w=2070&auto=format&fit=crop",
                "imageHint": "athletic man",
            },
            {
                "name": "Dr. Fernanda L.",
                "role": "Nutricionista Parceira",
                "quote": '"Uso o NutriSmart para acompanhar meus pacientes e a adesão ao plano melhorou muito."',
                "imageUrl": "https://images.unsplash.com/photo-1559839734-2b71ea197ec2?fit=max&fm=jpg&q=80&w=1080",
                "imageHint": "health professional",
            },
        ],
    },
    "finalCtaSection": {
        "title": "Pronto para revolucionar sua saúde?",
        "subtitle": (
            "Junte-se a milhares de pessoas que já estão vivendo de forma mais "
            "saudável e conectada com a ajuda da nossa plataforma inteligente."
        ),
        "cta": "Comece sua Jornada Grátis",
    },
}

# Sections merged field-by-field; everything else is replaced wholesale.
NESTED_SECTIONS = (
    "logo",
    "theme",
    "heroSection",
    "featuresSection",
    "professionalProfileSection",
    "ctaSection",
    "testimonialsSection",
    "finalCtaSection",
)

DEFAULT_SITE_CONFIG: SiteConfig = SiteConfig.model_validate(_DEFAULT_DOCUMENT)

DEFAULT_TENANT_ID = "default"


# ==================== Merge ====================


def default_site_config_document() -> dict[str, Any]:
    """Return a fresh, mutable copy of the default config document."""
    return copy.deepcopy(_DEFAULT_DOCUMENT)


def merge_site_config(override: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Merge a tenant override document over the defaults.

    Top-level fields replace the default. Each nested section is merged key
    by key, so overriding one field of a section keeps the others. A section
    override that is not a mapping is carried through unchanged and left for
    validation to reject.

    Args:
        override: Tenant config document, or None if it does not exist

    Returns:
        Merged config document (camelCase keys)
    """
    merged = default_site_config_document()
    if not override:
        return merged

    for key, value in override.items():
        if key in NESTED_SECTIONS and isinstance(value, Mapping):
            merged[key] = {**merged[key], **copy.deepcopy(dict(value))}
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def build_site_config(override: Optional[Mapping[str, Any]]) -> SiteConfig:
    """Merge and validate. Raises pydantic.ValidationError on invalid input."""
    return SiteConfig.model_validate(merge_site_config(override))


def theme_css_variables(config: SiteConfig) -> dict[str, str]:
    """CSS custom properties for the configured primary colour."""
    primary, foreground = COLOR_HSL[config.theme.primary_color]
    return {
        "--primary": primary,
        "--primary-foreground": foreground,
        "--ring": primary,
    }
