"""Tests for the downloaded-files index."""

from likes_downloader.dedup import DedupIndex, split_stem


class TestDedupIndex:
    def test_missing_directory_is_empty(self, tmp_path):
        index = DedupIndex.scan(tmp_path / "nothing-here")
        assert index.count == 0
        assert not index.contains("alice 1 1.jpg")

    def test_scan_finds_files(self, tmp_path):
        (tmp_path / "alice 111 1.jpg").write_bytes(b"x")
        (tmp_path / "bob.bsky.social 3kabc 2.png").write_bytes(b"x")

        index = DedupIndex.scan(tmp_path)

        assert index.count == 2
        assert index.contains("alice 111 1.jpg")
        assert index.contains("bob.bsky.social 3kabc 2.png")
        assert not index.contains("alice 111 2.jpg")

    def test_matches_identity_with_other_extension(self, tmp_path):
        (tmp_path / "alice 111 1.jpg").write_bytes(b"x")

        index = DedupIndex.scan(tmp_path)

        assert index.contains("alice 111 1.png")

    def test_ignores_partial_files_and_directories(self, tmp_path):
        (tmp_path / "alice 111 1.jpg.part").write_bytes(b"x")
        (tmp_path / "carol 222 1.jpg").mkdir()

        index = DedupIndex.scan(tmp_path)

        assert index.count == 0
        assert not index.contains("alice 111 1.jpg")
        assert not index.contains("carol 222 1.jpg")

    def test_item_membership(self, fake_client, make_item):
        index = DedupIndex({"alice 100 1.jpg"})
        assert make_item(fake_client) in index
        assert make_item(fake_client, post_id="101") not in index


class TestSplitStem:
    def test_three_parts(self):
        assert split_stem("alice 111 1") == ("alice", "111", "1")

    def test_unrelated_names(self):
        assert split_stem("notes") is None
        assert split_stem("holiday photo 2024 final") is None
        assert split_stem("a  b") is None
