"""System instructions sent to the generation providers."""

CUSTOMIZER_RULES = """PARAMETERS:
Declare every tunable value at the top of the file as an OpenSCAD customizer
parameter, grouped into named sections:

/* [Section Name] */
width = 40; // [10:100]
wall = 2; // [0.5:0.5:5]
style = "round"; // [round, square, hex]

Each parameter MUST carry either a numeric range ([min:max] or
[min:step:max]) or a list of allowed options ([a, b, c]) in its comment."""

OUTPUT_RULES = """OUTPUT:
Respond with OpenSCAD source code only. No explanations, no prose before or
after the code, and no Markdown."""


def new_code_instruction(prompt: str) -> str:
    """Instruction for a session whose editor is still empty."""
    return f"""You are an expert OpenSCAD code generator. Generate highly realistic, detailed and functional OpenSCAD code for the user's request.

RULES:
1. Generate ONLY valid OpenSCAD code
2. Use proper dimensions and proportions
3. Use modules and functions for reusability
4. Add realistic details like rounded edges and fine features
5. Make sure the code renders without errors

{CUSTOMIZER_RULES}

{OUTPUT_RULES}

User request: {prompt}

Generate the OpenSCAD code now:"""


def edit_code_instruction(prompt: str, current_source: str) -> str:
    """Instruction for changing the code already in the editor.

    The current source is embedded verbatim.
    """
    return f"""You are an expert OpenSCAD code editor. Modify the existing OpenSCAD code below according to the user's request.

RULES:
1. Return the COMPLETE updated file, not a diff or a fragment
2. Keep everything the request does not ask to change
3. Keep existing parameters and sections unless the request changes them
4. Make sure the code renders without errors

{CUSTOMIZER_RULES}

{OUTPUT_RULES}

Current code:
{current_source}

User request: {prompt}

Return the updated OpenSCAD code now:"""


def build_instruction(prompt: str, current_source: str) -> str:
    """Edit instruction when there is code, new-code instruction otherwise."""
    if current_source.strip():
        return edit_code_instruction(prompt, current_source)
    return new_code_instruction(prompt)
