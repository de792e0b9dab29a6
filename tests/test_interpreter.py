"""
自然言語クエリ → SearchCriteria 変換のテスト。
各プローブは独立に動き、マッチしなければ項目は未設定のまま、limit は常に10。
"""
import pytest

from reinfolib_mcp.interpreter import (
    PREFECTURE_CODES,
    lookup_prefecture_code,
    man_yen_to_yen,
    parse_natural_language_query,
)
from reinfolib_mcp.schemas import SearchCriteria


# --- documented examples ---


def test_full_example_query():
    """「5件」は limit に反映されない（常に10）。"""
    c = parse_natural_language_query("東京都新宿区の2022年の物件情報を5件取得")
    assert c.as_dict() == {
        "prefectureCode": "13",
        "keywords": "新宿区",
        "from": "2022-1",
        "to": "2022-4",
        "limit": 10,
    }


def test_price_range():
    c = parse_natural_language_query("1000万円以上2000万円以下の物件")
    assert c.min_trade_price == "10000000"
    assert c.max_trade_price == "20000000"
    assert c.keywords is None
    assert c.prefecture_code is None


def test_area_is_kept_raw():
    assert parse_natural_language_query("50平方メートル").as_dict() == {"area": "50", "limit": 10}


def test_osaka():
    c = parse_natural_language_query("大阪府の物件")
    assert c.prefecture_code == "27"
    assert c.keywords is None


def test_empty_string_yields_only_limit():
    assert parse_natural_language_query("").as_dict() == {"limit": 10}


def test_no_recognizable_pattern():
    assert parse_natural_language_query("いい感じの家を探しています").as_dict() == {"limit": 10}


# --- prefecture lookup ---


@pytest.mark.parametrize("name,code", sorted(PREFECTURE_CODES.items()))
def test_every_listed_prefecture_resolves(name, code):
    assert parse_natural_language_query(f"{name}の物件").prefecture_code == code


def test_unlisted_prefecture_matches_but_stays_unset():
    c = parse_natural_language_query("埼玉県さいたま市の物件")
    assert c.prefecture_code is None
    assert "prefectureCode" not in c.as_dict()
    assert c.keywords == "さいたま市"


def test_bare_prefecture_name_is_not_looked_up():
    """「大阪」のように接尾辞のない名前は一覧に無いので未設定。"""
    assert parse_natural_language_query("大阪で探す").prefecture_code is None


def test_prefecture_after_other_text():
    c = parse_natural_language_query("2023年の神奈川県横浜市")
    assert c.prefecture_code == "14"
    assert c.keywords == "横浜市"
    assert c.from_ == "2023-1"


@pytest.mark.parametrize("q,code", [
    ("2023年福岡県福岡市の物件", "40"),
    ("2023年愛知県の物件", "23"),
    ("2021年兵庫県神戸市", "28"),
])
def test_year_directly_before_prefecture(q, code):
    """「年」は県名の一部にならない。"""
    assert parse_natural_language_query(q).prefecture_code == code


def test_lookup_prefecture_code():
    assert lookup_prefecture_code("北海道") == "01"
    assert lookup_prefecture_code("沖縄県") is None


# --- municipality ---


def test_municipality_without_prefecture():
    assert parse_natural_language_query("横浜市の物件").keywords == "横浜市"


def test_municipality_containing_prefecture_suffix_chars():
    assert parse_natural_language_query("京都府京都市の物件").keywords == "京都市"
    assert parse_natural_language_query("府中市の物件").keywords == "府中市"


def test_longest_run_before_suffix_is_taken():
    assert parse_natural_language_query("大阪府大阪市北区の物件").keywords == "大阪市北区"


@pytest.mark.parametrize("q,keywords", [
    ("さいたま市の物件", "さいたま市"),
    ("埼玉県さいたま市浦和区の物件", "さいたま市浦和区"),
    ("茨城県つくば市で探す", "つくば市"),
    ("兵庫県南あわじ市の土地", "南あわじ市"),
    ("いわき市", "いわき市"),
])
def test_hiragana_in_municipality_name(q, keywords):
    assert parse_natural_language_query(q).keywords == keywords


def test_particle_ends_the_name():
    assert parse_natural_language_query("中古マンションの新宿区").keywords == "新宿区"
    assert parse_natural_language_query("駅近を横浜市で").keywords == "横浜市"


@pytest.mark.parametrize("q,keywords", [
    ("2023年横浜市の物件", "横浜市"),
    ("2023年福岡県福岡市の物件", "福岡市"),
    ("5件港区", "港区"),
])
def test_count_directly_before_municipality(q, keywords):
    """「2023年」「5件」は市区町村名に含めない。"""
    assert parse_natural_language_query(q).keywords == keywords


def test_town_and_village_suffixes():
    assert parse_natural_language_query("北海道ニセコ町").keywords == "ニセコ町"
    assert parse_natural_language_query("檜原村の土地").keywords == "檜原村"


# --- independence of probes ---


def test_city_and_price_in_same_query():
    c = parse_natural_language_query("横浜市の3000万円以下の物件")
    assert c.keywords == "横浜市"
    assert c.max_trade_price == "30000000"
    assert c.min_trade_price is None


def test_all_probes_at_once():
    c = parse_natural_language_query("愛知県名古屋市で2021年、500万円以上1500万円以下、80平方メートル")
    assert c.as_dict() == {
        "prefectureCode": "23",
        "keywords": "名古屋市",
        "minTradePrice": "5000000",
        "maxTradePrice": "15000000",
        "area": "80",
        "from": "2021-1",
        "to": "2021-4",
        "limit": 10,
    }


def test_first_match_wins_per_probe():
    c = parse_natural_language_query("2019年か2020年、100万円以上か200万円以上")
    assert c.from_ == "2019-1"
    assert c.min_trade_price == "1000000"


# --- year handling ---


def test_quarter_mention_still_gives_whole_year():
    """四半期の指定は無視され、年全体（1〜4）になる。"""
    c = parse_natural_language_query("2022年第3四半期の取引")
    assert (c.from_, c.to) == ("2022-1", "2022-4")


def test_non_20xx_year_is_ignored():
    c = parse_natural_language_query("1999年の物件")
    assert c.from_ is None and c.to is None


# --- normalization / numbers ---


def test_full_width_digits():
    c = parse_natural_language_query("１０００万円以上　６０平方メートル")
    assert c.min_trade_price == "10000000"
    assert c.area == "60"


def test_decimal_price_and_area():
    c = parse_natural_language_query("1.5万円以上 45.5平方メートル")
    assert c.min_trade_price == "15000"
    assert c.area == "45.5"


@pytest.mark.parametrize("amount,expected", [
    ("1", "10000"),
    ("1000", "10000000"),
    ("0.5", "5000"),
    ("0.00001", "0.1"),
])
def test_man_yen_to_yen(amount, expected):
    assert man_yen_to_yen(amount) == expected


# --- contract ---


def test_idempotent():
    q = "東京都新宿区の2022年の物件情報を5件取得"
    assert parse_natural_language_query(q) == parse_natural_language_query(q)


@pytest.mark.parametrize("q", ["", " ", "市", "県", "年", "20年", "万円以上", "\n\t", "🏠"])
def test_limit_always_ten(q):
    c = parse_natural_language_query(q)
    assert isinstance(c, SearchCriteria)
    assert c.limit == 10


def test_to_price_params_uses_api_names():
    params = parse_natural_language_query("東京都新宿区の2022年").to_price_params()
    assert params.to_query() == {
        "prefecture": "13",
        "keywords": "新宿区",
        "from": "2022-1",
        "to": "2022-4",
        "limit": 10,
    }
