"""Prompts for generating monetization modules from a product."""

from langchain_core.prompts import PromptTemplate

SOURCE_CONTENT_MAX_CHARS = 12000
PROMPT_RECORD_MAX_CHARS = 2000
MIN_CONTENT_CHARS = 200

SYSTEM_PROMPT = """You are a world-class business strategist, conversion copywriter, and product architect.

You create products that:
- Feel human, emotional, and real
- Solve actual problems
- Are structured, actionable, and monetizable
- Read like premium content, not AI output
- Could be sold immediately without editing

You write with clarity, authority, emotional intelligence, practical depth and strategic thinking.

You never summarize.
You never output vague advice.
You always produce full, complete, structured content.

Every output must feel like:
"This could be sold today for money.\""""

MODULE_INSTRUCTIONS: dict[str, str] = {
    "course": """Create a fully monetizable Online Course from the following product.

Requirements:
- Course title and promise
- Learning outcomes (5-8)
- Full module structure (5-8 modules)
- Each module: 3-5 lesson titles with summaries
- Scripts or bullet lesson content for each lesson
- Homework/exercises per module
- Completion transformation statement
- Format as detailed markdown with clear headings""",
    "lead_magnet": """Create a fully monetizable Lead Magnet from the following product.

Requirements:
- Lead magnet title
- Hook headline
- Problem framing paragraph
- Value promise
- 5-10 page structured content (write in full)
- CTA section
- Landing page copy for opt-in
- Thank-you page copy
- Format as detailed markdown""",
    "prompt_pack": """Create a fully monetizable Prompt Pack from the following product.

Requirements:
- Prompt pack title and niche positioning
- 20-30 high-quality prompts
- Categorized by use case (4-6 categories)
- Clear instructions for each prompt
- Use examples for at least 5 prompts
- Monetization positioning section
- Format as detailed markdown""",
    "landing_page": """Create fully monetizable Landing Page Copy from the following product.

Requirements:
- Hero section: headline, subheadline, CTA
- Pain-to-solution framing section
- Benefits bullets (8-10)
- Social proof placeholders with copy
- Offer breakdown section
- Pricing section copy
- CTA section
- FAQ section (5-8 questions)
- Format as detailed markdown""",
    "email_sequence": """Create a fully monetizable Email Sequence from the following product.

Requirements:
- Welcome sequence (3-5 emails with subject lines and full body)
- Nurture sequence (3-5 emails with subject lines and full body)
- Sales sequence (3-5 emails with subject lines and full body)
- Re-engagement email
- Each email: subject line, preview text, full body copy, CTA
- Format as detailed markdown""",
    "affiliate_funnel": """Create a fully monetizable Affiliate Funnel from the following product.

Requirements:
- Traffic source suggestions (5-8)
- Lead magnet mapping
- Funnel steps (5-7 steps detailed)
- Page-by-page copy for each funnel step
- Offer angles (3-5)
- Monetization logic
- Retargeting flow description
- Format as detailed markdown""",
    "upsell_offer": """Create a fully monetizable Upsell/Downsell Offer from the following product.

Requirements:
- Upsell product idea and name
- Offer positioning and unique angle
- Pricing psychology explanation
- Full upsell page copy
- Downsell alternative offer
- Funnel placement logic
- Format as detailed markdown""",
    "micro_saas_blueprint": """Create a fully monetizable Micro SaaS Blueprint from the following product.

Requirements:
- SaaS concept and name
- Core problem it solves
- Target user persona
- MVP feature list (10-15 features)
- Monetization model (pricing tiers)
- User flows (3-5 key flows)
- Growth strategy (5-8 tactics)
- Tech stack suggestion
- Launch roadmap (90-day plan)
- Format as detailed markdown""",
}

module_prompt = PromptTemplate.from_template(
    """{instruction}

Title: "{title}"
Topic: "{topic}"
Description: "{description}"

Source Content:
{source_content}

Requirements:
- Output must be complete, professional, and production-ready
- Use emotional language and real-world framing
- Include clear structure, sections, and deliverables
- Do NOT summarize - write everything in full
- Format clearly using markdown headings and lists
- Assume this will be sold to real customers

Begin now."""
)


def build_module_prompt(
    module_type: str,
    title: str,
    topic: str,
    description: str | None = None,
    source_content: str | None = None,
) -> str:
    """User prompt for one module; unknown types use the course instruction."""
    instruction = MODULE_INSTRUCTIONS.get(module_type, MODULE_INSTRUCTIONS["course"])
    return module_prompt.format(
        instruction=instruction,
        title=title,
        topic=topic,
        description=description or "N/A",
        source_content=(source_content or "")[:SOURCE_CONTENT_MAX_CHARS],
    )
