import pytest

from vault_agent.models.operations import OperationKind
from vault_agent.services.link_updater import LinkUpdater, rewrite_links


class TestRewriteLinks:
    def test_wikilink_by_name_keeps_heading_and_alias(self) -> None:
        content = "See [[old]] and [[old#Intro|the intro]] but not [[older]]."

        assert rewrite_links(content, "old.md", "new.md") == (
            "See [[new]] and [[new#Intro|the intro]] but not [[older]]."
        )

    def test_full_path_wikilink(self) -> None:
        content = "[[notes/old]]"

        assert rewrite_links(content, "notes/old.md", "archive/old.md") == "[[archive/old]]"

    def test_markdown_link(self) -> None:
        content = "[label](notes/old.md)"

        assert rewrite_links(content, "notes/old.md", "notes/new.md") == "[label](notes/new.md)"

    def test_url_encoded_markdown_link(self) -> None:
        content = "[label](my%20notes%2Fold%20file.md)"

        assert rewrite_links(content, "my notes/old file.md", "my notes/new file.md") == (
            "[label](my%20notes%2Fnew%20file.md)"
        )

    def test_unrelated_content_untouched(self) -> None:
        content = "nothing to see [[other]]"

        assert rewrite_links(content, "old.md", "new.md") == content


class TestLinkUpdater:
    @pytest.mark.asyncio
    async def test_plans_modify_for_each_linking_note(self, store, write_note) -> None:
        write_note("old.md", "# Old")
        write_note("a.md", "link [[old]]")
        write_note("b.md", "link [x](old.md)")
        write_note("c.md", "no link")

        ops = await LinkUpdater(store).plan_updates([("old.md", "new.md")])

        assert {o.source_path: o.content for o in ops} == {
            "a.md": "link [[new]]",
            "b.md": "link [x](new.md)",
        }
        assert all(o.kind == OperationKind.MODIFY for o in ops)

    @pytest.mark.asyncio
    async def test_several_moves_fold_into_one_modify(self, store, write_note) -> None:
        write_note("dir/one.md", "")
        write_note("dir/two.md", "")
        write_note("index.md", "[[one]] [[two]]")

        ops = await LinkUpdater(store).plan_updates(
            [("dir/one.md", "dir/uno.md"), ("dir/two.md", "dir/dos.md")]
        )

        assert len(ops) == 1
        assert ops[0].content == "[[uno]] [[dos]]"

    @pytest.mark.asyncio
    async def test_no_backlinks_no_ops(self, store, write_note) -> None:
        write_note("lonely.md", "")

        assert await LinkUpdater(store).plan_updates([("lonely.md", "x.md")]) == []
