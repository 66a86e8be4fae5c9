"""Layout variants each page section knows how to render."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class VariantOption:
    id: str
    label: str
    description: str


VARIANT_OPTIONS: dict[str, tuple[VariantOption, ...]] = {
    "hero": (
        VariantOption("centered", "Centered", "Text centered, classic hero."),
        VariantOption("split-photo-right", "Split Photo Right", "Text left, image right."),
        VariantOption("split-photo-left", "Split Photo Left", "Text right, image left."),
        VariantOption("overlap", "Overlap", "Text card overlaps photo."),
        VariantOption("photo-background", "Photo Background", "Full-bleed photo background."),
        VariantOption("video-background", "Video Background", "Full-bleed video background."),
        VariantOption("gallery-background", "Gallery Background", "Rotating gallery background."),
    ),
    "cta": (
        VariantOption("centered", "Centered", "Centered content."),
        VariantOption("split", "Split", "Split text and image."),
        VariantOption("banner", "Banner", "Full-width banner."),
        VariantOption("card-elevated", "Card Elevated", "Elevated card style."),
    ),
    "testimonials": (
        VariantOption("carousel", "Carousel", "Auto-rotating horizontal carousel."),
        VariantOption("grid", "Grid", "Static grid layout."),
        VariantOption("masonry", "Masonry", "Pinterest-style masonry."),
        VariantOption("slider-vertical", "Slider Vertical", "Stacked vertical list."),
        VariantOption("featured-single", "Featured Single", "One featured testimonial."),
    ),
    "services": (
        VariantOption("grid-cards", "Grid Cards", "Equal-sized cards grid."),
        VariantOption("featured-large", "Featured Large", "One large featured card."),
        VariantOption("list-horizontal", "List Horizontal", "Horizontal scroll list."),
        VariantOption("accordion", "Accordion", "Expandable accordion list."),
        VariantOption("tabs", "Tabs", "Tabbed interface."),
    ),
}


def get_variant_options(section: str | None = None) -> dict[str, list[dict]]:
    if not section or section == "all":
        sections = VARIANT_OPTIONS
    else:
        sections = {section: VARIANT_OPTIONS.get(section, ())}
    return {name: [asdict(o) for o in options] for name, options in sections.items()}


def is_known_section(section: str) -> bool:
    return section in VARIANT_OPTIONS


def is_known_variant(section: str, variant: str) -> bool:
    return any(o.id == variant for o in VARIANT_OPTIONS.get(section, ()))
