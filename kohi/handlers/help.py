"""List commands, or show the details of one."""

from collections import OrderedDict

from kohi.commands import Command, CommandContext

RULE = "━━━━━━━━━━━━━━"

CATEGORY_LABELS = OrderedDict([
    ("education", "📖 | 𝙴𝚍𝚞𝚌𝚊𝚝𝚒𝚘𝚗"),
    ("image", "🖼 | 𝙸𝚖𝚊𝚐𝚎"),
    ("music", "🎧 | 𝙼𝚞𝚜𝚒𝚌"),
    ("others", "👥 | 𝙾𝚝𝚑𝚎𝚛𝚜"),
])


def _category_block(label: str, names) -> str:
    listed = "\n".join(f"│ - {name}" for name in names)
    return f"╭─╼━━━━━━━━╾─╮\n│ {label}\n{listed}\n╰─━━━━━━━━━╾─╯"


class HelpCommand(Command):
    names = ("help",)
    description = "Show available commands"
    usage = "help\nhelp [command name]"
    author = "Coffee"
    category = "others"

    async def execute(self, ctx: CommandContext) -> None:
        if ctx.args:
            await ctx.reply(self.describe(ctx, ctx.args[0].lower()))
        else:
            await ctx.reply(self.overview(ctx))

    def describe(self, ctx: CommandContext, name: str) -> str:
        spec = ctx.commands.lookup(name)
        if spec is None:
            return f'Command "{name}" not found.'
        lines = [
            RULE,
            f"𝙲𝚘𝚖𝚖𝚊𝚗𝚍 𝙽𝚊𝚖𝚎: {spec.name}",
            f"𝙳𝚎𝚜𝚌𝚛𝚒𝚙𝚝𝚒𝚘𝚗: {spec.description}",
            f"𝚄𝚜𝚊𝚐𝚎: {spec.usage}",
        ]
        if spec.aliases:
            lines.append(f"𝙰𝚕𝚒𝚊𝚜𝚎𝚜: {', '.join(spec.aliases)}")
        lines.append(RULE)
        return "\n".join(lines)

    def overview(self, ctx: CommandContext) -> str:
        groups = OrderedDict((key, []) for key in CATEGORY_LABELS)
        for spec in ctx.commands.specs:
            key = spec.category.lower() or "others"
            groups.setdefault(key, []).append(spec.name)

        blocks = [
            _category_block(CATEGORY_LABELS.get(key, key.title()), sorted(names))
            for key, names in groups.items()
            if names
        ]
        return (
            f"{RULE}\n𝙰𝚟𝚊𝚒𝚕𝚊𝚋𝚕𝚎 𝙲𝚘𝚖𝚖𝚊𝚗𝚍𝚜:\n"
            + "\n".join(blocks)
            + f"\nChat {ctx.prefix}help [name]\nto see command details.\n{RULE}"
        )
