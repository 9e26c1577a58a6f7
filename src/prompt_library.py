"""Static prompt fragments and lookup tables used by the job builder.

Everything here is read-only data. Long rule documents that are sent to
the model verbatim (the constitution, the QC and safety rubrics) live in
templates/ instead.
"""

GLOBAL_BASE_PROMPT = """\
Keep the original model identity, body proportions, face shape, hairstyle, and skin tone unchanged.
Keep the original outfit design, fabric type, color, texture, stitching, and fit exactly the same.
Do not add or remove any accessories, belts, keyrings, or non-product items.
Remove any belts, keyrings, or styling accessories if present.
Keep the original background, environment, lighting, and shadows consistent.
Do not change the background style or location.
Preserve natural human anatomy and realistic posture."""

# Camera angles for fitting variations: id -> (label, instruction)
ANGLES = {
    "front": (
        "Front",
        "Camera angle: Front view. Body rotation: 0 degrees. Facing forward naturally. "
        "Balanced weight on both feet.",
    ),
    "left35": (
        "Left 35",
        "Camera angle: Body rotated 35 degrees to the left. Left side emphasized. "
        "Head follows body direction naturally. Natural relaxed posture.",
    ),
    "right35": (
        "Right 35",
        "Camera angle: Body rotated 35 degrees to the right. Right side emphasized. "
        "Head follows body direction naturally. Natural relaxed posture.",
    ),
    "left90": (
        "Left 90",
        "Camera angle: Body rotated 90 degrees to the left. Full left profile view. "
        "Side silhouette clearly visible.",
    ),
    "right90": (
        "Right 90",
        "Camera angle: Body rotated 90 degrees to the right. Full right profile view. "
        "Side silhouette clearly visible.",
    ),
}

VIEW_MODES = {
    "top": "upper body",
    "full": "full body",
    "bottom": "lower body",
}

# Framing instructions for pose changes: id -> (label, instruction)
FRAMINGS = {
    "full": (
        "Full body",
        "**FRAMING:**\n"
        "- **Full body shot (Head to Toe).**\n"
        "- Ensure the ENTIRE figure is visible within the frame.\n"
        "- Do NOT crop the head or the shoes.\n"
        "- Leave some breathing room (negative space) above the head and below the feet.",
    ),
    "top": (
        "Upper body",
        "**FRAMING:**\n"
        "- **Upper body shot (Waist Up).**\n"
        "- Crop from the mid-thighs or waist upwards.\n"
        "- Focus on the torso, chest, and face.\n"
        "- Sharp focus on the upper garment details.",
    ),
    "bottom": (
        "Lower body",
        "**FRAMING:**\n"
        "- **Lower body shot only.**\n"
        "- **Crop from waist to shoes.**\n"
        "- The head and torso should NOT be visible.\n"
        "- Ensure the shoes are fully visible and grounded (do not cut off the feet).\n"
        "- Center the pants in the frame.",
    ),
}

# Pose library for pose changes: id -> (label, pose description)
POSE_LIBRARY = {
    "walking": (
        "Walking",
        "Walking forward naturally, dynamic leg movement, showing the flow of the wide pants.",
    ),
    "standing": (
        "Casual stand",
        "Standing casually with weight on one leg, one hand in pocket, slight side angle.",
    ),
    "sitting": (
        "Sitting",
        "Sitting on a high stool, one leg extended to show the pant length and texture.",
    ),
    "backview": (
        "Back view",
        "Back view, walking away, highlighting the fit of the hips and leg line.",
    ),
}

# Automatic background scenarios: (name, description)
BACKGROUND_SCENARIOS = (
    ("Studio", "Soft daylight studio with subtle floor shadow, clean minimal aesthetic, "
               "professional e-commerce look."),
    ("Urban", "Minimal urban concrete or asphalt ground with natural sunlight, "
              "city street vibe but clean background."),
    ("Indoor", "Warm neutral indoor space with indirect window light, "
               "cozy but minimal interior atmosphere."),
)

# UGC location shots: id -> (name, scene description)
LOCATIONS = {
    "korean_subway_station": (
        "Subway station",
        "Clean modern Seoul subway platform, tiled walls, soft fluorescent light, "
        "commuters blurred in the background.",
    ),
    "cafe_window": (
        "Cafe window seat",
        "Minimal specialty coffee shop by a large window, warm wood tones, "
        "natural afternoon light.",
    ),
    "city_crosswalk": (
        "City crosswalk",
        "Busy downtown crosswalk at golden hour, street signs and storefronts softly out of focus.",
    ),
    "rooftop": (
        "Rooftop",
        "Urban rooftop terrace at sunset with the city skyline behind, warm rim light.",
    ),
    "park_path": (
        "Park path",
        "Tree-lined park walkway in early autumn, dappled sunlight on the ground.",
    ),
    "department_store": (
        "Department store",
        "Bright department store floor with polished marble and clean glass displays.",
    ),
    "hanok_alley": (
        "Hanok alley",
        "Narrow traditional hanok village alley with stone walls and tiled roofs, soft overcast light.",
    ),
    "beach_boardwalk": (
        "Beach boardwalk",
        "Wooden boardwalk by the sea on a clear day, gentle breeze, bright natural light.",
    ),
}

COLOR_PALETTE = {
    "White": "#FFFFFF",
    "Black": "#000000",
    "Grey": "#808080",
    "Charcoal": "#36454F",
    "Navy": "#000080",
    "Blue": "#0000FF",
    "Sky Blue": "#87CEEB",
    "Beige": "#F5F5DC",
    "Khaki": "#F0E68C",
    "Brown": "#A52A2A",
    "Red": "#FF0000",
    "Burgundy": "#800020",
    "Pink": "#FFC0CB",
    "Yellow": "#FFFF00",
    "Green": "#008000",
    "Olive": "#808000",
}

# Partial edit: region id -> preserve clause
PRESERVE_CLAUSES = {
    "bottom": "- BOTTOM GARMENT: Preserve pants/skirt color, fit, fabric, wrinkles, and silhouette exactly. Do NOT change.",
    "top": "- TOP GARMENT: Do not modify the top garment in any way.",
    "shoes": "- SHOES: Keep the original shoes unchanged.",
    "pose": "- POSE: Do not change the model's pose or stance.",
    "face": "- FACE: Preserve facial features and expression.",
    "accessories": "- ACCESSORIES: Keep existing accessories.",
}

EDIT_REGIONS = tuple(PRESERVE_CLAUSES)

TOP_EDIT_CLAUSES = {
    "color": "- TOP EDIT: Change only the color of the top garment while preserving design and fit.",
    "design": "- TOP EDIT: Replace the top garment design with a different style.",
    "material": "- TOP EDIT: Change the material texture of the top garment.",
    "replace": "- TOP EDIT: Replace the entire top garment with a new one.",
}

SHOES_EDIT_CLAUSES = {
    "change": "- SHOES EDIT: Replace the shoes with a different style in the same category. Do not alter leg length.",
    "remove": "- SHOES EDIT: Remove the shoes cleanly (barefoot or socks).",
}

POSE_EDIT_CLAUSES = {
    "maintain": None,
    "subtle": "- POSE EDIT: Make a subtle pose adjustment (5-10 degrees).",
    "rotate": "- POSE EDIT: Rotate the body slightly to the left/right.",
}

ACCESSORY_EDIT_CLAUSES = {
    "remove": "- ACCESSORIES EDIT: Remove all non-product accessories such as belts, watches, keyrings.",
    "replace": "- ACCESSORIES EDIT: Replace non-product accessories with minimal neutral ones.",
}

# Garment regions for color jobs, in rendering layer order
GARMENT_LAYER_ORDER = ("lower_garment", "upper_garment", "outerwear")

GARMENT_REGION_NAMES = {
    "upper_garment": "UPPER GARMENT (Top)",
    "lower_garment": "LOWER GARMENT (Bottom)",
    "outerwear": "OUTERWEAR (Jacket/Coat)",
}

FALLBACK_POSE_PROMPT = """\
[FALLBACK MODE ACTIVE]
Ignore any complex pose instructions.
Generate a **Standard Commercial Front Pose**:
- Standing naturally, facing forward.
- Arms relaxed by the sides, not covering the torso.
- Feet shoulder-width apart.
- Focus on clear product visibility."""

HEADLESS_CLAUSE = "**HEADLESS MODE:** Crop the image from the nose down. Focus on the outfit."
