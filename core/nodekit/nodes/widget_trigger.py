"""
Widget Trigger - entry point for messages from the support-bot widget.

The engine passes the widget request as ``metadata["widgetPayload"]``. An
``init`` request is a handshake: the node answers with the widget's intro
data and stops the graph. Any other request carries a user message and
continues the flow.
"""

from nodekit.node import (
    CreditTransaction,
    ExecutableNode,
    ExecutionContext,
    FieldSpec,
    Port,
    ResultPayload,
)

DEFAULT_INTRO = "🎉 Welcome! I'm your AI assistant. This is a demo workflow. Ask me anything!"
DEFAULT_COMPANY = "Deforge Assistant"
DEFAULT_DESCRIPTION = "AI Agent is ready to help!"


class WidgetTrigger(ExecutableNode):
    type = "widget_trigger"
    title = "Widget Trigger"
    category = "trigger"
    description = "Triggers the flow when a message is received from the support bot Widget"
    credit = 0
    inputs = [
        Port(name="Intro", type="Text", desc="Intro message shown by the bot"),
        Port(name="Company Name", type="Text", desc="Company Name shown in the widget header"),
        Port(name="Description", type="Text", desc="Company or Chatbot description shown in the widget header"),
        Port(name="Logo", type="Text", desc="Company Logo shown in the widget header (SVG)"),
    ]
    outputs = [
        Port(name="Flow", type="Flow", desc="The Flow to trigger"),
        Port(name="Message", type="Text", desc="Message received by the bot"),
    ]
    fields = [
        FieldSpec(name="Intro", type="Text", desc="Intro message shown by the bot", value=DEFAULT_INTRO),
        FieldSpec(
            name="Company Name",
            type="Text",
            desc="Company Name shown in the widget header",
            value=DEFAULT_COMPANY,
        ),
        FieldSpec(
            name="Description",
            type="Text",
            desc="Company or Chatbot description shown in the widget header",
            value=DEFAULT_DESCRIPTION,
        ),
        FieldSpec(name="Logo", type="TextArea", desc="Company Logo shown in the widget header (SVG)"),
    ]
    difficulty = "easy"
    tags = ["trigger", "support", "bot", "widget"]

    defaults = {
        "Intro": DEFAULT_INTRO,
        "Company Name": DEFAULT_COMPANY,
        "Description": DEFAULT_DESCRIPTION,
        "Logo": "",
    }
    outcome_branch = None

    async def run(self, ctx: ExecutionContext, credits: CreditTransaction) -> ResultPayload:
        payload = ctx.environment.metadata.get("widgetPayload") or {}

        if payload.get("init"):
            ctx.logger.success("Received init request, responded successfully")
            return ResultPayload(
                outputs={
                    "Message": "",
                    "intro": ctx.param("Intro"),
                    "companyName": ctx.param("Company Name"),
                    "companyDescription": ctx.param("Description"),
                    "companyLogo": ctx.param("Logo"),
                },
                flow=False,
                terminate=True,
            )

        ctx.logger.success("Message received, continuing flow")
        return ResultPayload(outputs={"Message": payload.get("Message") or ""}, flow=True)
